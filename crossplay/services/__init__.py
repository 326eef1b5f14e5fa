"""Domain services: grid parsing, solve sessions, rooms and their collaborators."""
