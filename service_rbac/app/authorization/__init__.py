"""
Authorization package.

Contains the authorization service, the evaluation modes it supports and
the runtime assertions that can veto a decision.
"""
