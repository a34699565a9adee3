"""Configuration, logging, auth and clock primitives."""
