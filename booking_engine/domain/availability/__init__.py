"""Availability: slot validation and enumeration across required resources"""
