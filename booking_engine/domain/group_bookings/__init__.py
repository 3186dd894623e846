"""Group bookings: participant capacity and payment shares"""
