# Bucket board: capacity-limited task buckets and the rules that move tasks between them
#
# Components:
#   schema.py     - Data model (Task, Bucket, Capacity, TaskPatch, BucketPatch)
#   errors.py     - Result types and the exceptions raised at the service boundary
#   capacity.py   - "Does this bucket have room for N more tasks?"
#   hydration.py  - Joins flat task records onto their buckets, sorted
#   placement.py  - Picks the bucket a batch of tasks should land in
#   validation.py - Bucket delete / limit / reorder rules
#   engine.py     - Turns moves and relocations into order-index patches
#   store.py      - SQLite task and bucket stores
#   board.py      - Snapshot, plan, apply: the service the UI layer talks to
#   config.py     - YAML configuration
