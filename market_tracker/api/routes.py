from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from market_tracker.schemas.watchlist import WatchlistAddRequest

router = APIRouter()


@router.get('/market')
def get_market_quote(request: Request, symbol: str = ''):
    service = request.app.state.market_quote_service
    status_code, body = service.quote_body(symbol)
    return JSONResponse(status_code=status_code, content=body)


@router.get('/watchlist')
async def get_watchlist(request: Request):
    tracker = request.app.state.market_tracker
    return tracker.snapshot().model_dump(mode='json')


@router.post('/watchlist')
def add_symbol(req: WatchlistAddRequest, request: Request):
    tracker = request.app.state.market_tracker
    added = tracker.add(req.symbol)
    if added is None:
        return {'symbol': req.symbol.strip().upper() or None, 'added': False}
    return JSONResponse(status_code=201, content={'symbol': added, 'added': True})


@router.delete('/watchlist/{symbol}')
def remove_symbol(symbol: str, request: Request):
    tracker = request.app.state.market_tracker
    removed = tracker.remove(symbol)
    return {'symbol': symbol.strip().upper(), 'removed': removed}


@router.post('/watchlist/sync', status_code=202)
async def trigger_sync(request: Request):
    scheduler = request.app.state.sync_scheduler
    accepted = scheduler.trigger()
    return {'accepted': accepted, 'status': scheduler.status.value}


@router.get('/metrics/sync')
def sync_metrics(request: Request):
    metrics = request.app.state.sync_scheduler.metrics()
    metrics.update(request.app.state.market_quote_service.metrics())
    return metrics
