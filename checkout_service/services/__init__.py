"""Checkout domain services"""
