#!/usr/bin/env python3
"""
Database configuration modules.

This package contains declarative configuration for the resilience subsystem:
- resilience_configs: Required tables, file naming, thresholds and timings
"""
