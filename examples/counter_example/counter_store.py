from pystorekit import LoggerMiddleware, configure_store

from counter_slice import counter_slice

# 建立 Store，在預設中介軟體 (ThunkMiddleware) 之後加上日誌
store = configure_store(
    {"counter": counter_slice.reducer},
    middleware=lambda get_default: get_default() + [LoggerMiddleware()],
    options={"immutable_check": True},
)
