"""Fulfilment service test contracts"""
