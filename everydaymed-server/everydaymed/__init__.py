"""Daily medical case guessing game server."""
