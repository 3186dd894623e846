"""Pricing: time-dependent rules applied to a service's base price"""
