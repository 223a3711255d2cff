"""Observability: Prometheus metrics and HTTP metrics middleware"""
