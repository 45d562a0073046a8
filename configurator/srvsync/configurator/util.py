import asyncio
import functools


def _resolve_proxy(proxy, task):
    if proxy.done():
        return
    if task.cancelled():
        proxy.set_result(None)
    elif task.exception() is not None:
        proxy.set_exception(task.exception())
    else:
        proxy.set_result(task.result())


async def task_cancel_and_wait(task: asyncio.Task):
    """
    Cancel the task and wait for it to exit.

    The wait happens on a proxy future so that the caller remains cancellable even if the
    task shields itself from cancellation.
    """
    proxy = asyncio.get_running_loop().create_future()
    callback = functools.partial(_resolve_proxy, proxy)
    task.add_done_callback(callback)
    try:
        task.cancel()
        await proxy
    except asyncio.CancelledError:
        pass
    finally:
        task.remove_done_callback(callback)


async def wait_first(*aws):
    """
    Runs the given awaitables as tasks until the first one completes.

    The remaining tasks are cancelled and any exception from the completed task is raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, _ = await asyncio.wait(tasks, return_when = asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            if not task.done():
                await task_cancel_and_wait(task)
    for task in done:
        task.result()
