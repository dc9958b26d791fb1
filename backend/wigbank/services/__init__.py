"""Workflow services: each public function is one transaction boundary."""
