"""Shared datastructures for the relay."""
