"""PyVMM — a discrete-event simulator of virtual memory and process admission.

A single kernel owns a simulated clock, a process table and a frame
table.  It admits worker processes over time, services their memory
references with demand paging and LRU replacement, and reports
per-process and system-wide statistics when the run ends.
"""

__version__ = "0.1.0"
