"""Prompt workspace synchronization engine."""
