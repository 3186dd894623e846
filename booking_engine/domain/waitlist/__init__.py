"""Priority waitlist for freed slots"""
