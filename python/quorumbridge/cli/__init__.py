"""Command-line interface for quorumbridge."""
