#!/usr/bin/env python
"""Exceptions, warnings and small numerical services"""
