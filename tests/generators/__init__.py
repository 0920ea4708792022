"""Tests for appset-controller."""
