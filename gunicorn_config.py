import multiprocessing
import os

# Gunicorn configuration for the counter terminal: gunicorn -c gunicorn_config.py wsgi:app
bind = os.environ.get('BIND', '0.0.0.0:8000')

# HELD_BILL_STORE=memory and BUSY_FLAGS=memory keep their state in the
# worker process and need a single worker.
if 'memory' in (os.environ.get('HELD_BILL_STORE', 'sql'), os.environ.get('BUSY_FLAGS', 'sql')):
    workers = 1
else:
    workers = int(os.environ.get('WEB_CONCURRENCY', multiprocessing.cpu_count() * 2 + 1))
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
worker_class = 'gthread'

timeout = 60
graceful_timeout = 30
max_requests = 2000
max_requests_jitter = 200

accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info')
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus'
capture_output = True
