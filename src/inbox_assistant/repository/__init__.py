"""Persistence for accounts, rules, trackers and rule execution state."""
