"""Wanderlust - web client for the Date 10 travel planning assistant."""
