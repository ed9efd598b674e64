"""Payments app package.

Client for the refund leg of the Razorpay payment gateway.
"""
