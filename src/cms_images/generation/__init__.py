"""Remote generation saga and its collaborators."""
