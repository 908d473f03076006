from kora import Application

app = Application()


async def hello(ctx, call_next):
    ctx.body = {"message": "Hello from kora!", "path": ctx.path}


app.use(hello)

if __name__ == '__main__':
    app.listen('0.0.0.0', 8000)
