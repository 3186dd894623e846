"""Cancellation policies and penalty computation"""
