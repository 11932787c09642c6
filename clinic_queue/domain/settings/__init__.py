"""Clinic settings domain - queue policy knobs consumed by the scheduling core"""
