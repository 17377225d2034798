"""Cordiq backend: email draft persistence and AI template generation."""
