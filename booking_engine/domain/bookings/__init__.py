"""Bookings: creation, rescheduling, cancellation and the commit-time conflict guard"""
