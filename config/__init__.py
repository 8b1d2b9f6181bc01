"""Process settings for the round engine tooling."""
