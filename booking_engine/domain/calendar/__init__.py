"""Calendar domain - open windows from business hours, holidays and resource schedules"""
