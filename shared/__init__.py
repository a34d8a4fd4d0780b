"""Configuration, logging and startup validation shared by the API and scripts."""
