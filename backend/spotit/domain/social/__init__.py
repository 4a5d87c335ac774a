"""Friends, friend requests and blocks."""
