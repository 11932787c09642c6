"""Capacity domain - DailyCapacityTracker and the availability query"""
