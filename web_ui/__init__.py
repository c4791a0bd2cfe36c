"""Hig Clean Tec web layer"""
