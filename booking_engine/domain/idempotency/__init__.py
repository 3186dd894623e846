"""Exactly-once outcomes for retried booking creation"""
