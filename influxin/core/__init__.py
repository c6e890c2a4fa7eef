"""Core pipeline: process supervision and agent wiring."""
