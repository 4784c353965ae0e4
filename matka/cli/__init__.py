"""MATKA - Command line interface"""
