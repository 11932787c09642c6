"""Queue domain - QueueAllocator, PriorityReorderer and queue views"""
