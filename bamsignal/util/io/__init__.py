#!/usr/bin/env python
"""Wrappers for file I/O"""
