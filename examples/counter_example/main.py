import asyncio
import json
import logging

from pystorekit import unwrap_result

from counter_selectors import get_counter_info
from counter_slice import actions, increment_async, increment_if_odd, select_count
from counter_store import store


async def main():
    # 訂閱狀態變化
    store.select(select_count).subscribe(
        on_next=lambda t: print(f"計數變化: {t[0]} -> {t[1]}")
    )
    store.select(get_counter_info).subscribe(
        on_next=lambda info_tuple: print(
            f"計數器信息更新: {json.dumps(info_tuple[1], ensure_ascii=False)}"
        )
    )

    # 分發actions
    print("\n==== 開始測試基本操作 ====")
    store.dispatch(actions.increment())
    store.dispatch(actions.increment_by_amount(5))
    store.dispatch(actions.decrement())
    store.dispatch(increment_if_odd(10))  # 5 是奇數 -> 15
    store.dispatch(increment_if_odd(10))  # 15 是奇數 -> 25

    # 觸發異步action
    print("\n==== 開始測試異步操作 ====")
    final_action = await store.dispatch(increment_async(3))
    print(f"fetchCount 結果: {unwrap_result(final_action)}")

    failed = await store.dispatch(increment_async(-1))
    print(f"fetchCount 失敗: {failed.error.message}")

    # 打印最終狀態
    print("\n==== 最終狀態 ====")
    print(store.get_state())
    store.teardown()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
