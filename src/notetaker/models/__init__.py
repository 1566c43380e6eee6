"""Domain and database models for the Notetaker core."""
