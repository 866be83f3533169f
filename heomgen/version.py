# This file is automatically generated by heomgen's setup.py.
short_version = '0.1.0'
version = '0.1.0'
release = True
