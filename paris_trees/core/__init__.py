"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants, data sources, cache file names
- logging: Console logging set-up for the command line
- exceptions: Custom exception hierarchy
"""
