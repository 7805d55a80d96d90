# Stores are in-process memory: a single worker keeps one consistent data set.
worker_class = "gthread"
workers = 1
threads = 8
bind = "0.0.0.0:3000"
timeout = 60
graceful_timeout = 30
keepalive = 5
forwarded_allow_ips = "10.0.0.0/8,127.0.0.1"

# security limits
limit_request_fields = 100
limit_request_field_size = 8190   # adjust prudently
# limit_request_line = 4094       # enable when needed
