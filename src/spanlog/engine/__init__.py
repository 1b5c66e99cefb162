"""Transformation engine: conditions, templates, synthesis and the connector driver.

Import from the submodules directly. Configuration imports the condition and
template modules and must not pull in the connector.
"""
