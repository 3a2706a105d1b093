"""Core building blocks for marketfeed."""
