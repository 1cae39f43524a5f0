"""Mighty - recurring entries and reminders for a personal life tracker."""
