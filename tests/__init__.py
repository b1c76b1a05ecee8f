"""Tests for household_core."""
