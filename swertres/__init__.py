"""Ticket integrity and settlement engine for the three-digit numbers game."""
