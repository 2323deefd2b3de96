import os

# Must be set before any blueprint module is imported, since they read settings at import time.
os.environ.setdefault('OWLSALE_CONFIG_MODULE', 'owlsale.conf.unittests')
