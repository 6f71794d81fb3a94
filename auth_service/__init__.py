"""Refresh-token lifecycle and access-token service"""
