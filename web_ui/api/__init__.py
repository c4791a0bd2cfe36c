"""Entitlement HTTP API"""
