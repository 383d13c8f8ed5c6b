"""Benchmark engine for benchloop.

Provides the benchmark context handed to workloads, the adaptive
iteration controller, isolated execution of measurement calls, and the
trimmed statistics used to summarize calibration samples.
"""
