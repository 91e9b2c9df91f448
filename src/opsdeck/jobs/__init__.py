"""
opsdeck.jobs

Background job machinery: the comparison pipeline graph, the bounded fan-out
primitive, result writers and the in-process job runner.
"""
