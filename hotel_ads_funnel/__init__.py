"""
Hotel ads funnel reporting.

Meta Ads and Google Ads campaign insights per hotel client: conversion
funnel parsing, period aggregation, summary storage and reports.
"""

__version__ = "1.0.0"
