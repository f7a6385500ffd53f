"""DiskReclaim command-line front end"""
