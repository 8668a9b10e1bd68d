"""
Configuração do Gunicorn para a API do portal de comunidades.

O log de acesso termina com o tempo de resposta em microssegundos (%(D)s), útil
para acompanhar a latência das chamadas que dependem do Asaas.
Para usar: gunicorn community_portal.wsgi:application -c gunicorn.conf.py
"""

import os

# Bind
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", 2))
worker_class = "sync"
threads = int(os.environ.get("GUNICORN_THREADS", 1))

# Chamadas ao Asaas têm timeout próprio (ASAAS_TIMEOUT); o worker espera um pouco mais.
timeout = int(os.environ.get("GUNICORN_TIMEOUT", 60))

accesslog = "-"  # stdout
errorlog = "-"
access_log_format = '%(h)s - - %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

capture_output = True
