"""Pure domain helpers: path canonicalization, key encoding and timestamps."""
