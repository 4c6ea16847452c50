"""Public HTTP API package for the dockvault runtime."""
