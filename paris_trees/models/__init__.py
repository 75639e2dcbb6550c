"""Data models: the tree table schema and the projected city window."""
