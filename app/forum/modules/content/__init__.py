"""
Content module: categories, threads and posts.

Invariants kept at rest after every write:
- category.thread_count / post_count match the live threads / posts under it
- thread.reply_count matches its live posts; last_reply_* points at the newest one (or null)
- user.thread_count / post_count match the live content they authored
Counter drift left by a crash is repaired by counters.reconcile_counters().
"""
