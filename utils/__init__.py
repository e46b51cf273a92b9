"""Shared helpers: logging setup, error logging and the draw commitment hash"""
