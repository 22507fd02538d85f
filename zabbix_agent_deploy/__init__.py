"""
Zabbix agent deployment for Windows hosts
"""

__version__ = '1.0.0'
