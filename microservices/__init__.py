"""T-Link microservices"""
