"""Operator scripts: one-time authorization and token inspection."""
