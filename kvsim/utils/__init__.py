# SPDX-License-Identifier: Apache-2.0
"""Utility helpers for kvsim."""
