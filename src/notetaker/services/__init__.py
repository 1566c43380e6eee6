"""Service layer for the Notetaker core."""
