"""Subscription-driven reconciliation of installed packages"""
