from pystorekit import create_selector

from counter_slice import select_count, select_status

# 派生資料只在輸入改變時重新計算
get_counter_info = create_selector(
    select_count,
    select_status,
    result_fn=lambda count, status: {"count": count, "status": status, "is_odd": count % 2 == 1},
)
