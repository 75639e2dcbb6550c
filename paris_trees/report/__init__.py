"""Figures and the Markdown report written to the output directory."""
